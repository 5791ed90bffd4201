"""Deep Research - command line runner.

Simple CLI for running a research session and printing its progress.
"""

import argparse
import asyncio
import json
import sys

from deep_research.agents.orchestrator import ResearchOrchestrator
from deep_research.models.research import OutputFormat, TimeScope
from deep_research.models.schemas import ResearchRequest


def print_report(data: dict) -> None:
    report = data.get("comprehensive_report", {})
    meta = data.get("research_metadata", {})
    print(f"\n\n[*] Research Complete!")
    print(f"   Runtime: {meta.get('duration_ms')}ms")
    print(f"   Searches: {meta.get('total_searches')}")
    print(f"   Sources: {data.get('unique_sources')} unique / {data.get('total_sources')} total")
    print(f"\n{'=' * 50}")
    print(report.get("title", "REPORT"))
    print(f"{'=' * 50}")
    print(report.get("executive_summary", ""))
    print("\nMain findings:")
    for finding in report.get("main_findings", []):
        print(f"  - {finding}")
    print(f"\n{report.get('detailed_analysis', '')}")
    recommendations = data.get("recommendations", {})
    if recommendations.get("immediate_actions"):
        print("\nImmediate actions:")
        for action in recommendations["immediate_actions"]:
            print(f"  - {action}")
    citations = data.get("citations", [])
    if citations:
        print("\nSources:")
        for idx, citation in enumerate(citations, 1):
            print(f"  [{idx}] {citation.get('title')} - {citation.get('url')}")


async def run_research(request: ResearchRequest, as_json: bool = False) -> int:
    """Run research and print events as they arrive. Returns an exit code."""
    if not as_json:
        print(f"Research query: {request.query}")
        print("-" * 50)

    orchestrator = ResearchOrchestrator()
    exit_code = 0

    async for event in orchestrator.research(request):
        event_type = event.event.value
        data = event.data

        if event_type == "research_step":
            if as_json:
                continue
            progress = data.get("progress")
            suffix = f" ({progress}%)" if progress is not None else ""
            print(f"[{data.get('status')}] {data.get('title')}{suffix}")
            if data.get("status") == "completed" and data.get("details"):
                print(f"     {str(data['details'])[:160]}")

        elif event_type == "research_complete":
            if as_json:
                print(json.dumps(data, indent=2))
            else:
                print_report(data)

        elif event_type == "research_failed":
            exit_code = 1
            if as_json:
                print(json.dumps(data, indent=2))
            else:
                partial = data.get("partial_results", {})
                print(f"\n[!] Research failed: {data.get('error')}")
                print(f"   Partial learnings: {len(partial.get('learnings', []))}")
                for learning in partial.get("learnings", [])[:10]:
                    print(f"  - {learning}")

        elif event_type == "error":
            exit_code = 1
            print(f"\n[!] Error: {data.get('message', 'Unknown error')}", file=sys.stderr)

    return exit_code


def main():
    parser = argparse.ArgumentParser(description="Deep Research Tool")
    parser.add_argument("--query", "-q", required=True, help="Research query")
    parser.add_argument("--depth", "-d", type=int, default=2, help="Research depth (1-4)")
    parser.add_argument("--breadth", "-b", type=int, default=3, help="Queries per level (2-6)")
    parser.add_argument("--focus", "-f", nargs="*", default=[], help="Focus areas")
    parser.add_argument(
        "--time-scope",
        choices=[t.value for t in TimeScope],
        default=TimeScope.COMPREHENSIVE.value,
    )
    parser.add_argument(
        "--output-format",
        choices=[f.value for f in OutputFormat],
        default=OutputFormat.DETAILED_REPORT.value,
    )
    parser.add_argument("--json", action="store_true", help="Print the full JSON response")

    args = parser.parse_args()

    try:
        request = ResearchRequest(
            query=args.query,
            depth=args.depth,
            breadth=args.breadth,
            focus_areas=args.focus,
            time_scope=TimeScope(args.time_scope),
            output_format=OutputFormat(args.output_format),
        )
    except ValueError as e:
        parser.error(str(e))

    sys.exit(asyncio.run(run_research(request, args.json)))


if __name__ == "__main__":
    main()
