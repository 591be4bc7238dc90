from freeze_guard.cli.fg import main

raise SystemExit(main())
