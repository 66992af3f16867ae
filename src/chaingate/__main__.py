import sys

from chaingate.cli import main

sys.exit(main())
