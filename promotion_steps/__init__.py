"""
promotion-steps runs the steps of a GitOps promotion.

The main entry point is the step runner registry in `promotion_steps.registry`,
and the `argocd-update` runner in `promotion_steps.argocd` that updates and
syncs Argo CD Applications.
"""

__all__ = [
    "argocd",
    "exceptions",
    "manifest",
    "promotion",
    "registry",
    "store",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
