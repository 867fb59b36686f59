"""Manifest template rendering."""

from kube_deploy.render.renderer import (
    PLACEHOLDER_PATTERN,
    RenderedManifest,
    render_manifest,
    render_template,
    scratch_path_for,
)

__all__ = [
    'PLACEHOLDER_PATTERN',
    'RenderedManifest',
    'render_manifest',
    'render_template',
    'scratch_path_for',
]
