from pordosol.cli import main

raise SystemExit(main())
