"""
Core installer engine.

This package contains the primary logic. The `InstallEngine` walks targets and
their dependency trees, delegating the files of each individual package to the
`PackageInstaller`.
"""
