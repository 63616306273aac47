from workstation_setup.cli import main

main()
