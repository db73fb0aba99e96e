import argparse
import json
import sys
import time

import requests

# API endpoint
DEFAULT_BASE_URL = "http://localhost:8000"

# Generation can take a while when MCP tools are involved
REQUEST_TIMEOUT = 300


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate a Notion template from a description")
    parser.add_argument("description", help="What the template should contain (10-2000 characters)")
    parser.add_argument("--theme", default="minimal",
                        help="Theme preset name (minimal, modern, professional, creative, light, dark, system)")
    parser.add_argument("--complexity", default="intermediate", choices=["simple", "intermediate", "advanced"],
                        help="How elaborate the template should be")
    parser.add_argument("--audience", default=None, help="Target audience")
    parser.add_argument("--use-mcp", action="store_true", help="Let the model call MCP tools")
    parser.add_argument("--server", action="append", default=[], dest="servers",
                        help="MCP server id the model may use (repeatable)")
    parser.add_argument("--images", action="store_true", help="Include image blocks")
    parser.add_argument("--save", action="store_true", help="Store the generated template")
    parser.add_argument("--notion", action="store_true", help="Also create a Notion page from the template")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL, help="API base URL")
    parser.add_argument("--timeout", type=int, default=REQUEST_TIMEOUT,
                        help="Timeout in seconds for the generation request")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    return parser.parse_args(argv)


def build_payload(args):
    payload = {
        "description": args.description,
        "theme": args.theme,
        "complexity": args.complexity,
        "useMCP": args.use_mcp,
        "selectedMCPServers": args.servers,
        "includeImages": args.images,
    }
    if args.audience:
        payload["targetAudience"] = args.audience
    return payload


def print_error(response):
    print(f"Error: Status code {response.status_code}")
    try:
        error = response.json().get("error", {})
    except ValueError:
        print(f"Raw response: {response.text}")
        return
    print(f"{error.get('code', 'UNKNOWN')}: {error.get('message', '')}")
    for detail in (error.get("details") or {}).get("errors", []):
        print(f"  - {detail}")


def print_template(template):
    print(f"\nTitle: {template['title']}")
    print(f"Theme: {template['theme']['name']}")
    print(f"Blocks ({len(template['blocks'])}):")
    for block in template["blocks"]:
        marker = f"h{block['level']}" if block["type"] == "heading" else block["type"]
        content = block.get("content", "").replace("\n", " ")
        print(f"  [{marker}] {content[:80]}")


def generate_template(args):
    """
    Generate a template through the API and optionally store it and push it to Notion.

    Returns:
        Process exit code
    """
    base_url = args.base_url.rstrip("/")

    try:
        health = requests.get(f"{base_url}/health", timeout=10)
        if health.status_code != 200:
            print(f"Error: Server not healthy. Status code: {health.status_code}")
            return 1
        if args.verbose:
            print(f"Server health check: {json.dumps(health.json(), indent=2)}")

        print("Generating template. This can take a minute...")
        start_time = time.time()
        response = requests.post(f"{base_url}/generate", json=build_payload(args), timeout=args.timeout)
        if response.status_code != 200:
            print_error(response)
            return 1

        result = response.json()
        elapsed = time.time() - start_time
        template = result["template"]
        print(f"Generated in {elapsed:.1f} seconds.")
        if result.get("error"):
            print(f"Warning: {result['error']['message']} (fallback template returned)")
        print_template(template)

        for tool_result in result.get("toolResults", []):
            state = "ok" if tool_result["success"] else f"failed: {tool_result['error']['message']}"
            print(f"Tool {tool_result['tool_call']['tool_name']}: {state}")

        if args.save or args.notion:
            saved = requests.post(f"{base_url}/templates", json=template, timeout=30)
            if saved.status_code != 201:
                print_error(saved)
                return 1
            print(f"\nSaved template {template['id']}")

        if args.notion:
            page = requests.post(f"{base_url}/notion/create", json={"template": template}, timeout=60)
            if page.status_code != 200:
                print_error(page)
                return 1
            print(f"Notion page: {page.json()['data'].get('url')}")

        if args.verbose:
            print("\nFull response:")
            print(json.dumps(result, indent=2))
        return 0
    except requests.exceptions.Timeout:
        print("\nError: Request timed out. The server might still be processing the request.")
    except requests.exceptions.ConnectionError:
        print("\nError: Could not connect to the server. Is it running?")
    except KeyboardInterrupt:
        print("\n\nOperation interrupted!")
    return 1


if __name__ == "__main__":
    sys.exit(generate_template(parse_args()))
