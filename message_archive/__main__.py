from message_archive.cli import main

main()
