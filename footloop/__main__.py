from footloop.bridge import main

main()
