"""Allow running as `python -m gitlab_safe_push`."""

from gitlab_safe_push.cli import main

main()
