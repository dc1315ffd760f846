"""Noboox - cited research reports

Simple CLI for running research queries.
"""

import argparse
import asyncio
import sys

from noboox.agents.orchestrator import ResearchOrchestrator
from noboox.models.research import Depth


async def run_research(query: str, depth: Depth, html: bool = False) -> int:
    """Run research on the given query. Returns a process exit code."""
    print(f"Research query: {query} ({depth.value})")
    print("-" * 50)

    orchestrator = ResearchOrchestrator()

    async for event in orchestrator.research(query, depth):
        event_type = event.event.value
        data = event.data

        if event_type == "state_changed":
            if data.get("to") not in ("done", "failed"):
                print(f"\n[~] {data.get('to', '').capitalize()}...")

        elif event_type == "search_result":
            provider = data.get("provider") or "no provider"
            print(f"  [+] {data.get('tier')} tier: {data.get('results_count')} results ({provider})")
            if data.get("fallback_from"):
                print(f"      fell back from {data['fallback_from']}: {data.get('fallback_reason')}")

        elif event_type == "section_generated":
            print(
                f"  [+] {data.get('section')}: {data.get('word_count')} words "
                f"after {data.get('attempts')} attempt(s)"
            )

        elif event_type == "research_complete":
            metadata = data.get("metadata", {})
            print(f"\n\n[*] Research Complete!")
            print(f"   Runtime: {data.get('runtime_ms')}ms")
            print(f"   Words: {metadata.get('wordCount')}")
            print(f"   Sources: {metadata.get('sourceCount')} ({metadata.get('sourceUsagePercent')}% cited)")
            print(f"\n{'='*50}")
            print("REPORT:")
            print(f"{'='*50}")
            print(data.get("content" if html else "markdown", ""))
            print(f"\n{'='*50}")
            for source in data.get("sources", []):
                print(f"[{source['id']}] {source['title']} - {source['url']}")

        elif event_type == "error":
            print(f"\n[!] Error: {data.get('message', 'Unknown error')}")
            return 1

    return 0


def main():
    parser = argparse.ArgumentParser(description="Noboox research reports")
    parser.add_argument("--query", "-q", required=True, help="Research query")
    parser.add_argument(
        "--depth",
        "-d",
        choices=[d.value for d in Depth],
        default=Depth.QUICK.value,
        help="Research depth (default: quick)",
    )
    parser.add_argument("--html", action="store_true", help="Print the rendered HTML instead of markdown")

    args = parser.parse_args()

    sys.exit(asyncio.run(run_research(args.query, Depth(args.depth), args.html)))


if __name__ == "__main__":
    main()
