"""Command-line front end for tensorbench."""
