"""Command line tool for running promotion steps against local manifests."""
