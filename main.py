#!/usr/bin/env python3
from niritaskbar.main import main

if __name__ == "__main__":
    main()
