from usergate.main import main

main()
