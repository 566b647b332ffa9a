import sys

from ssrloader.cli import main

sys.exit(main())
