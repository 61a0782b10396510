"""
Tests for tui.py — the dashboard driven headless through Textual's pilot.
"""

import argparse
import asyncio

from sendfiles.tui import TransferApp


def make_args(**overrides) -> argparse.Namespace:
    args = argparse.Namespace(
        destination=None,
        files=[],
        address=None,
        port=0,
        timeout=1.0,
        strip_prefix=False,
        no_broadcast=True,
        dest=None,
    )
    for key, value in overrides.items():
        setattr(args, key, value)
    return args


async def run_until_finished(app: TransferApp, attempts: int = 200):
    async with app.run_test() as pilot:
        for _ in range(attempts):
            if app.exit_code == 0:
                break
            await pilot.pause(0.05)
        await pilot.press("q")


class TestTransferApp:
    def test_send_completes(self, tmp_path, monkeypatch, start_receiver_thread):
        src = tmp_path / "src"
        src.mkdir()
        (src / "a.txt").write_bytes(b"dashboard")
        monkeypatch.chdir(src)

        receiver = start_receiver_thread()
        app = TransferApp(
            make_args(destination="127.0.0.1", files=["a.txt"], address=receiver.address)
        )
        asyncio.run(run_until_finished(app))
        receiver.join()

        assert app.exit_code == 0
        assert (tmp_path / "out" / "a.txt").read_bytes() == b"dashboard"

    def test_quit_while_waiting_cancels_receive(self, tmp_path):
        app = TransferApp(make_args(dest=str(tmp_path)))
        asyncio.run(run_until_finished(app, attempts=4))

        assert app.exit_code == 1
        assert app.cancel_event.is_set()
