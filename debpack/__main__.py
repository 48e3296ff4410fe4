import sys

from debpack.cli import main

sys.exit(main())
