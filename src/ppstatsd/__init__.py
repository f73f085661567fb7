"""ppstats collector daemon: config loading, logging setup and the ``ppstatsd`` CLI."""
