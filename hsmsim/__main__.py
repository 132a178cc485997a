from .run_server import main

main()
