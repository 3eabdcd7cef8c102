from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _parse_service(spec: str) -> dict:
    name, sep, image = spec.partition("=")
    if not sep or not name or not image:
        raise argparse.ArgumentTypeError(f"expected NAME=IMAGE, got {spec!r}")
    return {"service_name": name, "image": image}


def _load_file(path: str) -> list[dict]:
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, list):
        raise SystemExit(f"{path}: expected a JSON list of service configurations")
    return data


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Preview apps CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("apps", help="List applications and their services")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--app", default=None, help="Only events of this application")

    s_dep = sub.add_parser("deploy", help="Create or update an application")
    s_dep.add_argument("--app", required=True)
    s_dep.add_argument(
        "--service",
        action="append",
        type=_parse_service,
        default=[],
        metavar="NAME=IMAGE",
        help="Service to deploy (repeatable)",
    )
    s_dep.add_argument("--file", help="JSON file with a list of service configurations")

    s_del = sub.add_parser("delete", help="Delete an application")
    s_del.add_argument("--app", required=True)

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "apps":
        _print(requests.get(f"{base}/apps", timeout=10).json())
        return 0

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.app:
            params["app_name"] = args.app
        _print(requests.get(f"{base}/events", params=params, timeout=10).json())
        return 0

    if args.cmd == "deploy":
        payload = list(args.service)
        if args.file:
            payload.extend(_load_file(args.file))
        # Pulling images can take a while.
        r = requests.post(f"{base}/apps/{args.app}", json=payload, timeout=300)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "delete":
        r = requests.delete(f"{base}/apps/{args.app}", timeout=120)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
