"""
Service layer for RNA-seq QC.

This subpackage contains code that interacts with the outside world:
bundle files, figures on disk and the runtime environment.
"""
