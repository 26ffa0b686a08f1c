"""Package entry point for ``python -m caption_review``.

WHY: Users start a review session as ``python -m caption_review a.jpg b.png``.

HOW: Delegates to the CLI's main() function.
"""

from caption_review.cli import main

if __name__ == "__main__":
    main()
