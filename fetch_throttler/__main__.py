from fetch_throttler.cli import main

raise SystemExit(main())
