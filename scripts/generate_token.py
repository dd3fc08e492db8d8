"""
CLI utility to mint a static API token for the HTTP transport.

When FLOW_API_TOKEN is set, the server accepts only "Authorization: Bearer
<token>" and queries Neo4j with its own FLOW_USERNAME / FLOW_PASSWORD. This
script generates a random token for that variable and prints how to use it.

Usage examples:

    # 32 random bytes, URL-safe encoded (default)
    python -m scripts.generate_token

    # Longer token, and a different server URL in the printed examples
    python -m scripts.generate_token --bytes 48 --url https://mcp.example.com/mcp
"""

import argparse
import secrets

DEFAULT_URL = "http://localhost:8080/mcp"


def generate_token(num_bytes: int = 32) -> str:
    """
    Generate a random API token.

    Args:
        num_bytes: Amount of randomness; the encoded token is about 1.3x longer

    Returns:
        A URL-safe token string
    """
    if num_bytes < 16:
        raise ValueError("API tokens need at least 16 random bytes")
    return secrets.token_urlsafe(num_bytes)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate a static API token for the Flow MicroStrategy MCP server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Default token:
    %(prog)s

  Longer token:
    %(prog)s --bytes 48
        """,
    )
    parser.add_argument(
        "--bytes",
        type=int,
        default=32,
        help="Number of random bytes (default: 32, minimum: 16)",
    )
    parser.add_argument(
        "--url",
        default=DEFAULT_URL,
        help=f"MCP endpoint used in the printed examples (default: {DEFAULT_URL})",
    )

    args = parser.parse_args()

    try:
        token = generate_token(args.bytes)
    except ValueError as e:
        parser.error(str(e))

    print("Server configuration:")
    print(f"  export FLOW_API_TOKEN={token}")
    print()
    print("Usage with curl (initialize MCP session):")
    print(f"  curl -X POST {args.url} \\")
    print('    -H "Content-Type: application/json" \\')
    print('    -H "Accept: application/json, text/event-stream" \\')
    print(f'    -H "Authorization: Bearer {token}" \\')
    print(
        '    -d \'{"jsonrpc":"2.0","id":1,"method":"initialize",'
        '"params":{"protocolVersion":"2025-03-26","capabilities":{},'
        '"clientInfo":{"name":"test","version":"1.0"}}}\''
    )
    print()
    print("Or with an MCP client:")
    print(f"  claude mcp add --transport http flow-mstr {args.url} \\")
    print(f'    --header "Authorization: Bearer {token}"')


if __name__ == "__main__":
    main()
