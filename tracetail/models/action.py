from enum import Enum


class Action(Enum):
    QUIT = "quit"
