import sys

from domain_audit.cli import main

sys.exit(main())
