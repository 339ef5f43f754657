import sys

from qualdepth.cli import main


sys.exit(main())
