"""
Remote command queue
Per-device mailbox of commands. The operator side enqueues, the player polls
pending commands and acknowledges each one with a terminal outcome.
"""
from datetime import datetime
from typing import Any, List, Optional
from flask import current_app
from models import db, Device, PlayerCommand, CommandStatus
from utils.errors import ClientInputError, NotFoundError


class CommandQueue:
    """Lifecycle operations for PlayerCommand rows"""

    @staticmethod
    def enqueue(device: Device, command: str, params: Any = None, now: Optional[datetime] = None) -> PlayerCommand:
        """
        Append a pending command for a device

        Args:
            device: Target device
            command: Free-form command name (reload, play, screenshot, ...)
            params: Opaque JSON-compatible payload passed through to the player
            now: Creation timestamp

        Returns:
            Created PlayerCommand
        """
        command = (command or '').strip()
        if not command:
            raise ClientInputError('Missing command')

        player_command = PlayerCommand(
            device_id=device.id,
            command=command,
            params=params,
            status=CommandStatus.PENDING,
            created_at=now or datetime.now()
        )
        db.session.add(player_command)
        db.session.commit()

        current_app.logger.info(f"Queued command '{command}' ({player_command.id}) for device {device.code}")
        return player_command

    @staticmethod
    def list_pending(device: Device) -> List[PlayerCommand]:
        """Pending commands, oldest first. Read-only."""
        return PlayerCommand.query.filter_by(
            device_id=device.id,
            status=CommandStatus.PENDING
        ).order_by(PlayerCommand.created_at, PlayerCommand.id).all()

    @staticmethod
    def acknowledge(command_id: int, outcome: str = 'executed', result: Optional[str] = None,
                    now: Optional[datetime] = None) -> tuple:
        """
        Move a command to its terminal state

        Re-acknowledging a terminal command is accepted and changes nothing,
        so players may retry the call after a network failure.

        Returns:
            (PlayerCommand, changed) where changed is False for a repeat
        """
        try:
            status = CommandStatus(outcome or CommandStatus.EXECUTED.value)
        except ValueError:
            raise ClientInputError('Invalid status. Must be "executed" or "failed"')
        if not status.is_terminal:
            raise ClientInputError('Invalid status. Must be "executed" or "failed"')

        values = {'status': status, 'executed_at': now or datetime.now()}
        if result is not None:
            values['result'] = str(result)

        # Guarded on PENDING: at most one acknowledgement changes the row
        updated = PlayerCommand.query.filter_by(
            id=command_id,
            status=CommandStatus.PENDING
        ).update(values, synchronize_session=False)
        db.session.commit()

        player_command = db.session.get(PlayerCommand, command_id)
        if player_command is None:
            raise NotFoundError('Command not found')

        if not updated:
            current_app.logger.info(
                f"Command {command_id} already {player_command.status.value}, ignoring repeat acknowledgement"
            )
            return player_command, False

        current_app.logger.info(f"Command {command_id} ({player_command.command}) {status.value}")
        return player_command, True

    @staticmethod
    def history(device: Device, limit: Optional[int] = None) -> List[PlayerCommand]:
        """All commands of a device, newest first"""
        default_limit = current_app.config.get('COMMAND_HISTORY_LIMIT', 50)
        max_limit = current_app.config.get('COMMAND_HISTORY_MAX', 200)
        limit = default_limit if limit is None else max(1, min(limit, max_limit))

        return PlayerCommand.query.filter_by(device_id=device.id).order_by(
            PlayerCommand.created_at.desc(), PlayerCommand.id.desc()
        ).limit(limit).all()
