"""
ReviewLens - Web Server Entry Point
===================================

Run this to start the JSON API:
    python main.py

Then open http://127.0.0.1:8000/docs in your browser.

To classify pending reviews from the command line:
    python run_analysis.py --org 1
"""

import uvicorn


def main():
    """Start the web server."""
    print("\n" + "=" * 50)
    print("   ReviewLens - Review Analytics API")
    print("=" * 50)
    print("\n   Starting server at http://127.0.0.1:8000")
    print("   Press Ctrl+C to stop\n")

    uvicorn.run(
        "reviewlens.web.app:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
        log_level="info"
    )


if __name__ == "__main__":
    main()
