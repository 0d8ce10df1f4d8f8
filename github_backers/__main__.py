import sys

from github_backers.cli import main

sys.exit(main())
