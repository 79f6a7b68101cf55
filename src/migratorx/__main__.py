from migratorx.cli import main

raise SystemExit(main())
