import sys

from clipcloud.main import main

sys.exit(main())
