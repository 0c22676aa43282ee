import sys

from keepens.cli import main

sys.exit(main())
