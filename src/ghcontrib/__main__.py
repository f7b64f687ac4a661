from ghcontrib.cli import main

raise SystemExit(main())
