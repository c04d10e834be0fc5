import asyncio
import logging
from typing import Awaitable, Callable

from tqdm import tqdm

from peer_sync import ui_helpers
from peer_sync.client import PeerClient
from peer_sync.constants import Constants
from peer_sync.guard import max_size_label
from peer_sync.models import Notification, Snapshot
from peer_sync.reconciler import UpdateKind

logger = logging.getLogger(Constants.LOGGER_NAME)

Command = Callable[[], Awaitable[None]]


class GenericMenu:
    def __init__(self, client: PeerClient, title: str = "Generic Menu"):
        self.client = client
        self.title = title
        self.__options: list[dict] = []
        self.running = True

    def add_option(self, name: str, command: Command, description: str = "") -> None:
        """
        Adds an option to the menu which will be displayed
        """
        if any(option["name"] == name for option in self.__options):
            raise ValueError(f"Option \"{name}\" is already in the option menu.")
        self.__options.append({"name": name, "command": command, "description": description})

    async def get_input(self, prompt: str = ">> ") -> str:
        # input() blocks, so it gets a thread and polling carries on meanwhile
        return await asyncio.to_thread(input, prompt)

    def info(self) -> list[str]:
        return []

    def display(self) -> None:
        print("\n\n--------", self.title, "--------\n")
        for line in self.info():
            print(line)
        print()
        for i, option in enumerate(self.__options):
            print(f"{i + 1}) {option['name']}")
            if option["description"]:
                print(f"    Description: {option['description']}")

    async def __get_choice(self) -> int:
        while True:
            choice = (await self.get_input("Choice: ")).strip()
            if not choice.isnumeric():
                print("Choice was not a number, please try again.")
            elif int(choice) - 1 not in range(len(self.__options)):
                print("Choice out of range, please try again.")
            else:
                return int(choice)

    async def display_all(self) -> None:
        while self.running:
            self.display()
            choice = await self.__get_choice()
            await self.__options[choice - 1]["command"]()


class MainMenu(GenericMenu):
    def __init__(self, client: PeerClient, download_dir: str):
        GenericMenu.__init__(self, client, title="Peer Network")
        self.download_dir = download_dir
        self.__bars: dict[str, tqdm] = {}

        self.add_option("Show connected peers", self.show_peers)
        self.add_option("Connect to peer", self.connect, "Paste another user's node address to connect to them.")
        self.add_option("Show messages", self.show_messages)
        self.add_option("Broadcast a message", self.broadcast)
        self.add_option("Send file", self.send_file, f"Maximum file size: {max_size_label()}")
        self.add_option("Received files", self.show_files)
        self.add_option("Download a received file", self.download)
        self.add_option("Show our node address", self.show_local_address,
                        "Share this address with others so they can connect to you.")
        self.add_option("Quit", self.quit)

        client.notifications.subscribe(self.on_notification)
        client.reconciler.subscribe(self.on_update)
        client.transfers.subscribe(self.on_send_progress)

    def info(self) -> list[str]:
        snapshot = self.client.snapshot
        lines = [
            f"Backend: {self.client.api.base_url if self.client.api else '-'}",
            f"Our address: {snapshot.local_addr or 'Loading...'}",
            f"Peers: {len(snapshot.peers)}    Messages: {len(snapshot.messages)}    Files: {len(snapshot.files)}",
        ]
        if snapshot.error:
            lines.append(f"Error: {snapshot.error}")
        return lines

    def on_notification(self, notification: Notification | None) -> None:
        if notification:
            print(f"\n[{notification.kind.value}] {notification.message}")

    def on_update(self, kind: UpdateKind, snapshot: Snapshot) -> None:
        if kind is UpdateKind.ERROR and snapshot.error:
            print(f"\nError: {snapshot.error}")

    def on_send_progress(self, peer_id: str, percent: float | None) -> None:
        bar = self.__bars.get(peer_id)
        if percent is None:
            if bar is not None:
                bar.close()
                del self.__bars[peer_id]
            return
        if bar is None:
            bar = tqdm(total=100, desc=f"Sending to {ui_helpers.shorten_peer_id(peer_id)}",
                       bar_format="{desc}: {percentage:5.1f}%|{bar}|")
            self.__bars[peer_id] = bar
        bar.n = percent
        bar.refresh()

    def show_action_error(self, action: str) -> None:
        error = self.client.snapshot.action_errors.get(action)
        if error is not None:
            print(f"Error: {error}")

    async def show_peers(self) -> None:
        peers = self.client.snapshot.peers
        if not peers:
            print("No peers connected yet")
        for peer in peers:
            for line in ui_helpers.describe_peer(peer):
                print(line)
            print()

    async def connect(self) -> None:
        addr = await self.get_input("Paste peer address here (Leave blank to go back): ")
        if not addr.strip():
            return
        if not await self.client.connect(addr):
            self.show_action_error("connect")

    async def show_messages(self) -> None:
        lines = ui_helpers.message_lines(self.client.snapshot)
        if not lines:
            print("No messages yet")
        for line in lines:
            print(line)

    async def broadcast(self) -> None:
        message = await self.get_input("Type a message (Leave blank to go back): ")
        if not message.strip():
            return
        if not await self.client.broadcast(message):
            self.show_action_error("broadcast")

    async def choose_peer(self) -> str | None:
        peers = self.client.snapshot.peers
        if not peers:
            print("No peers connected yet")
            return None
        for i, peer in enumerate(peers):
            status = ui_helpers.send_status(self.client.transfers.progress(peer.id))
            print(f"{i + 1}) {peer.id} {status}")
        choice = (await self.get_input("Peer (Leave blank to go back): ")).strip()
        if choice.isnumeric() and int(choice) - 1 in range(len(peers)):
            return peers[int(choice) - 1].id
        return None

    async def send_file(self) -> None:
        peer_id = await self.choose_peer()
        if peer_id is None:
            return
        if self.client.transfers.is_busy(peer_id):
            print("A file is already being sent to this peer.")
            return
        path = (await self.get_input("Path of file to send: ")).strip()
        if not path or self.client.select_file(path) is None:
            self.show_action_error("send_file")
            return
        task = self.client.send_file(peer_id)
        if task is None:
            self.show_action_error("send_file")
            return
        await task
        self.show_action_error("send_file")

    async def show_files(self) -> None:
        files = self.client.snapshot.files
        if not files:
            print("No files received yet")
        for file in files:
            print(ui_helpers.describe_file(file))

    async def download(self) -> None:
        name = (await self.get_input("Name of file to download (Leave blank to go back): ")).strip()
        if not name:
            return
        if self.client.snapshot.find_file(name) is None:
            print(f"No received file called \"{name}\".")
            return
        path = await self.client.download_file(name, self.download_dir)
        if path:
            print(f"Saved to {path}")
        else:
            self.show_action_error("download")

    async def show_local_address(self) -> None:
        addr = self.client.share_local_address()
        print(addr or "Loading...")

    async def quit(self) -> None:
        self.running = False


async def run(base_url: str, download_dir: str) -> None:
    async with PeerClient(base_url) as client:
        await client.poller.poll_once()
        menu = MainMenu(client, download_dir)
        try:
            await menu.display_all()
        except (EOFError, KeyboardInterrupt):
            logger.info("Input closed, leaving.")


def main() -> None:
    base_url, verbose, download_dir = ui_helpers.handle_terminal()
    ui_helpers.create_logger(verbose)
    try:
        asyncio.run(run(base_url, download_dir))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
