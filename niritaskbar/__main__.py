from niritaskbar.main import main

main()
