"""depapply: resolve package dependency graphs and apply packages to projects."""

__version__ = "0.1.0"
