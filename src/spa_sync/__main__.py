import sys

from spa_sync.cli import main

sys.exit(main())
