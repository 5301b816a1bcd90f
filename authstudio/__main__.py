from authstudio.cli import main

main()
