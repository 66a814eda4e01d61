from mdtasks.cli import main

main()
