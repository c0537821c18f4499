"""
Exporters package: render sink adapters and file export.
"""

from exporters.vtk import VTKExporter

__all__ = ['VTKExporter']
