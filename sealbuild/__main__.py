from sealbuild.cli import main

main()
