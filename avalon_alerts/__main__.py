from avalon_alerts.main import main

raise SystemExit(main())
