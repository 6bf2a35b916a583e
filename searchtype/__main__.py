from searchtype.cli.app import main

main()
