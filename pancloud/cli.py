import argparse
import getpass
import json
import sys
from dataclasses import asdict, replace

from .backend import PanBackend
from .config import Settings
from .errors import PanError
from .models import DownloadRequest, FileKind, ProgressEvent, UploadRequest
from .utils import format_bytes


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='pancloud')
    p.add_argument('--session', help='credentials file (default: $PANCLOUD_SESSION_PATH)')
    sub = p.add_subparsers(dest='cmd', required=True)

    login = sub.add_parser('login')
    login.add_argument('username')
    login.add_argument('--password')

    sub.add_parser('logout')

    ls = sub.add_parser('ls')
    ls.add_argument('dir_id', type=int, nargs='?', default=0)
    ls.add_argument('--json', action='store_true')

    mkdir = sub.add_parser('mkdir')
    mkdir.add_argument('parent_id', type=int)
    mkdir.add_argument('name')

    rm = sub.add_parser('rm')
    rm.add_argument('file_id', type=int)

    share = sub.add_parser('share')
    share.add_argument('file_ids', type=int, nargs='+')
    share.add_argument('--password')

    pull = sub.add_parser('pull')
    pull.add_argument('file_id', type=int)
    pull.add_argument('dest')
    pull.add_argument('--dir-id', type=int, default=0, help='directory holding the file')

    push = sub.add_parser('push')
    push.add_argument('parent_id', type=int)
    push.add_argument('path')

    return p


def _print_progress(event: ProgressEvent) -> None:
    sys.stderr.write(f"\r{event.key}: {event.phase.value} {event.progress:3d}%")
    if event.phase.is_terminal:
        sys.stderr.write("\n")
    sys.stderr.flush()


def _require_session(backend: PanBackend) -> None:
    if not backend.try_auto_login():
        raise SystemExit('Not logged in: run "pancloud login <username>" first')


def run(args: argparse.Namespace, backend: PanBackend) -> int:
    if args.cmd == 'login':
        password = args.password or getpass.getpass('Password: ')
        print(backend.login(args.username, password))
        return 0

    if args.cmd == 'logout':
        backend.logout()
        print('OK')
        return 0

    _require_session(backend)

    if args.cmd == 'ls':
        entries = backend.list_directory(args.dir_id)
        if args.json:
            print(json.dumps([asdict(entry) for entry in entries], indent=2))
        else:
            for entry in entries:
                size = '-' if entry.kind == FileKind.DIRECTORY else format_bytes(entry.size_bytes)
                suffix = '/' if entry.kind == FileKind.DIRECTORY else ''
                print(f"{entry.id}\t{size}\t{entry.name}{suffix}")
        return 0

    if args.cmd == 'mkdir':
        backend.create_folder(args.parent_id, args.name)
        print('OK')
        return 0

    if args.cmd == 'rm':
        backend.delete_file(args.file_id)
        print('OK')
        return 0

    if args.cmd == 'share':
        result = backend.share_files(args.file_ids, args.password)
        print(result.share_url)
        if result.share_password:
            print(f"password: {result.share_password}")
        return 0

    if args.cmd == 'pull':
        entry = next((e for e in backend.list_directory(args.dir_id) if e.id == args.file_id), None)
        if entry is None:
            raise SystemExit(f"File {args.file_id} not found in directory {args.dir_id}")
        with backend.events.subscribe(_print_progress):
            backend.start_download(DownloadRequest.for_entry(entry, args.dest))
        print(args.dest)
        return 0

    if args.cmd == 'push':
        with backend.events.subscribe(_print_progress):
            backend.start_upload(UploadRequest(parent_directory_id=args.parent_id, source_path=args.path))
        print('OK')
        return 0

    return 1


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = Settings.from_env()
    if args.session:
        settings = replace(settings, session_path=args.session)
    backend = PanBackend(settings)
    try:
        return run(args, backend)
    except PanError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    finally:
        backend.client.close()


if __name__ == '__main__':
    raise SystemExit(main())
