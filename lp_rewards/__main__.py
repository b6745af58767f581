import sys

from lp_rewards.main import main

sys.exit(main())
