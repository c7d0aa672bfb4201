import sys

from datasync.main import main

sys.exit(main())
