from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional

from jose import jwt

from .auth import Claims, TokenVerifier
from .errors import ConfigurationError
from .settings import load_settings

ROLES = ("teachers", "students")


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="essai-token",
		description="Mint a signed API token for local testing.",
		epilog="Example: essai-token teacher@example.com teachers teacher-123 MySchool 1A,1B",
	)
	parser.add_argument("email")
	parser.add_argument("role", nargs="?", default="teachers", choices=ROLES)
	parser.add_argument("member_id", nargs="?", default="mock-member-id")
	parser.add_argument("school", nargs="?", default="demo-school")
	parser.add_argument("class_names", nargs="?", default="demo-class", metavar="class")
	return parser


def main(argv: Optional[List[str]] = None) -> int:
	args = build_parser().parse_args(argv)
	try:
		settings = load_settings()
	except ConfigurationError as e:
		print(f"Error: {e}", file=sys.stderr)
		return 1

	claims = Claims(
		member_id=args.member_id,
		rolekey=args.role,
		school=args.school,
		email=args.email,
		classes=args.class_names,
	)
	verifier = TokenVerifier.from_settings(settings)
	token = verifier.issue(claims)

	print(f"Expires in: {settings.jwt_expires_minutes} minutes\n")
	print("JWT Token:")
	print(token)
	print("\nDecoded Payload:")
	print(json.dumps(jwt.get_unverified_claims(token), indent=2))
	print("\nUsage:")
	print(f"  Add to URL: ?jwt={token}")
	print(f"  Bearer Auth: Authorization: Bearer {token}")
	return 0


if __name__ == "__main__":
	sys.exit(main())
