"""
Plugin registration for DayDream Scope

Registers the Glyph Grid pipeline as a video source.
Uses @hookimpl decorator when Scope's formal plugin API is available,
falls back to the simpler registry pattern otherwise.
"""

try:
    from scope.core.plugins.hookspecs import hookimpl
except ImportError:
    hookimpl = None

from .pipeline import GridPipeline


if hookimpl is not None:
    @hookimpl
    def register_pipelines(register):
        """Called when Scope loads the plugin (formal @hookimpl API)."""
        register(GridPipeline)
else:
    def register_pipelines(registry):
        """Called when Scope loads the plugin (simple registry API)."""
        registry.register(
            name="glyph_grid",
            pipeline_class=GridPipeline,
            description="Still image rendered as an animated glyph grid",
        )
