import sys

from couponfarm.cli import main

sys.exit(main())
