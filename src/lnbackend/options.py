"""Filters accepted by :meth:`Backend.list_channels`.

>>> new_channel_options(active_only, public_only)
ChannelOptions(active=True, inactive=False, public=True, private=False)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable


@dataclass(frozen=True)
class ChannelOptions:
    active: bool = False
    inactive: bool = False
    public: bool = False
    private: bool = False


ChannelOption = Callable[[ChannelOptions], ChannelOptions]


def active_only(opts: ChannelOptions) -> ChannelOptions:
    return replace(opts, active=True)


def inactive_only(opts: ChannelOptions) -> ChannelOptions:
    return replace(opts, inactive=True)


def public_only(opts: ChannelOptions) -> ChannelOptions:
    return replace(opts, public=True)


def private_only(opts: ChannelOptions) -> ChannelOptions:
    return replace(opts, private=True)


def new_channel_options(*opts: ChannelOption) -> ChannelOptions:
    options = ChannelOptions()
    for opt in opts:
        options = opt(options)
    return options
