"""Entry point: ``python -m bitbucket_mcp`` or the ``bitbucket-mcp`` script."""

from .cli import main

if __name__ == "__main__":
    main()
