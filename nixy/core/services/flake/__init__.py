"""
Flake services — generate, inspect, and edit the flake.nix nixy manages.

    generator       PackageState → flake.nix text (pure)
    local_packages  scan the packages directory
    editor          marker-delimited line edits
    legacy          marker recovery, retrofit, incremental edits
    files           classify the file on disk and apply a change to it
"""
