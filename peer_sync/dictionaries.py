from typing import TypedDict


class RawPeer(TypedDict, total=False):
    """
    A peer as the node encodes it. Go's peer.AddrInfo gives "ID" and "Addrs",
    other nodes use lowercase - decoding accepts both.
    """
    ID: str
    id: str
    Addrs: list[str]
    addrs: list[str]


# "from" is a keyword, so this one has to use the functional syntax.
RawMessage = TypedDict("RawMessage", {"from": str, "content": str})


class RawFile(TypedDict, total=False):
    Name: str
    From: str
    Size: int


class LocalAddrResponse(TypedDict):
    addr: str


class ConnectRequest(TypedDict):
    addr: str


class BroadcastRequest(TypedDict):
    message: str
