"""Allow running argo-compare with `python -m argo_compare`."""

from .tool.argo_compare import main

if __name__ == "__main__":
    main()
