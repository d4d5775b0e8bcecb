import sys

from koios_stake_txs.cli import main

sys.exit(main())
