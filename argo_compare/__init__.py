"""argo-compare renders the Argo CD Applications changed on a branch and diffs them.

Every Application manifest that differs between the working tree and a target
branch is rendered twice with helm, once per version, and the rendered
resources are compared file by file. The result is printed, piped to an
external diff viewer, or posted as a merge request comment.

See `argo_compare.app` for the orchestration of a run.
"""

__all__ = [
    "app",
    "cache",
    "command",
    "config",
    "exceptions",
    "git_repo",
    "helm",
    "manifest",
    "resource_diff",
]
