from rayswap.cli import main

raise SystemExit(main())
