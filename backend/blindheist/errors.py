"""Error taxonomy for the heist server.

Every rejection the core can produce is a ``HeistError``. Socket handlers
turn them into ``error`` or ``action_failed`` replies; nothing here is fatal
to the process, and no state is mutated before one is raised.
"""


class HeistError(Exception):
    """Base class for all expected, client-facing failures."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ProtocolError(HeistError):
    """Inbound message could not be understood."""


# ---- Room errors ----

class RoomError(HeistError):
    pass


class RoomNotFound(RoomError):
    def __init__(self, code=None):
        self.code = code
        super().__init__('Room not found')


class RoomNotAcceptingPlayers(RoomError):
    def __init__(self):
        super().__init__('Game already in progress')


class RoomFull(RoomError):
    def __init__(self):
        super().__init__('Room is full')


class AlreadyInRoom(RoomError):
    def __init__(self):
        super().__init__('Already in room')


class PlayerNotInRoom(RoomError):
    def __init__(self):
        super().__init__('Player not in room')


class InvalidPlayerCount(RoomError):
    def __init__(self, required: int = 4):
        super().__init__(f'Need exactly {required} players to start')


class SettingsLocked(RoomError):
    def __init__(self):
        super().__init__('Game already started')


class InvalidSettings(RoomError):
    pass


class GameNotInProgress(RoomError):
    def __init__(self):
        super().__init__('Game not in progress')


class RoleNotPermitted(RoomError):
    pass


# ---- Action errors ----

class ActionError(HeistError):
    pass


class UnknownAction(ActionError):
    def __init__(self):
        super().__init__('Unknown action')


class InvalidDirection(ActionError):
    def __init__(self, direction=None):
        self.direction = direction
        super().__init__('Invalid direction')


class MatchOver(ActionError):
    def __init__(self):
        super().__init__('Match is over')


# ---- Ability errors ----

class AbilityError(HeistError):
    pass


class UnknownAbility(AbilityError):
    def __init__(self):
        super().__init__('Unknown ability')


class AbilityOnCooldown(AbilityError):
    def __init__(self):
        super().__init__('Ability on cooldown')


class InvalidTarget(AbilityError):
    pass


class TargetAlreadyCollected(AbilityError):
    def __init__(self):
        super().__init__('Loot already collected')
