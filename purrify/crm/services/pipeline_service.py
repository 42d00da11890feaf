"""
Pipeline Service - Kanban board over deal stages.

Moving a card is optimistic: the local deal is changed first, the update is
persisted, and on failure the previous value is put back and an error toast
is raised through the `notify` callback. An update that stores no row
counts as a failure.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from core.utils.logging_config import create_logger

logger = create_logger('purrify.crm.pipeline')

Notifier = Callable[[str, str], None]


@dataclass
class MoveResult:
    """Outcome of a card move or field update."""
    success: bool
    deal: Optional[Dict[str, Any]] = None
    previous_stage: Optional[str] = None
    error: Optional[str] = None
    changed: bool = True


class PipelineBoard:
    """
    In-memory board for one request: stages in display order plus the deals on them.

    Args:
        stages: Stage rows ({'name', 'order_index', ...}) or plain names
        deals: Deal rows; mutated in place on successful moves
        update_deal: Persists (deal_id, updates) and returns the stored row
        notify: Optional (type, message) toast sink
    """

    def __init__(self, stages: List[Any], deals: List[Dict[str, Any]],
                 update_deal: Callable[[Any, Dict[str, Any]], Optional[Dict[str, Any]]],
                 notify: Optional[Notifier] = None):
        self.stages = [s['name'] if isinstance(s, dict) else s for s in self._ordered(stages)]
        self.deals = deals
        self._update_deal = update_deal
        self._notify = notify or (lambda _type, _message: None)

    @staticmethod
    def _ordered(stages):
        if all(isinstance(s, dict) and 'order_index' in s for s in stages):
            return sorted(stages, key=lambda s: s['order_index'])
        return list(stages)

    def _find(self, deal_id) -> Dict[str, Any]:
        for deal in self.deals:
            if str(deal.get('id')) == str(deal_id):
                return deal
        raise KeyError(f'Deal {deal_id} not found')

    def deals_in_stage(self, stage: str) -> List[Dict[str, Any]]:
        return [d for d in self.deals if d.get('stage') == stage]

    def columns(self) -> List[Dict[str, Any]]:
        """One column per stage, in order. Deals on unknown stages are left out."""
        columns = []
        for stage in self.stages:
            stage_deals = self.deals_in_stage(stage)
            columns.append({
                'stage': stage,
                'deals': stage_deals,
                'count': len(stage_deals),
                'total_value': sum(float(d.get('value') or 0) for d in stage_deals),
            })
        return columns

    def move_deal(self, deal_id, new_stage: str) -> MoveResult:
        """Drop a card on a column.

        Raises:
            KeyError: unknown deal id
            ValueError: unknown stage
        """
        if new_stage not in self.stages:
            raise ValueError(f'Unknown stage: {new_stage}')
        deal = self._find(deal_id)
        previous_stage = deal.get('stage')

        if previous_stage == new_stage:
            return MoveResult(success=True, deal=deal, previous_stage=previous_stage, changed=False)

        log = logger.child(deal_id=deal_id, from_stage=previous_stage, to_stage=new_stage)

        # 1. local state first
        deal['stage'] = new_stage
        try:
            # 2. persist
            stored = self._update_deal(deal_id, {'stage': new_stage})
            if stored is None:
                raise LookupError(f'Deal {deal_id} was not updated')
        except Exception as e:
            # 3. roll back and surface the failure
            deal['stage'] = previous_stage
            log.error(f'Error updating deal: {e}')
            self._notify('error', 'Failed to update deal')
            return MoveResult(success=False, deal=deal, previous_stage=previous_stage,
                              error='Failed to update deal')

        deal.update(stored)
        log.info('Deal moved')
        return MoveResult(success=True, deal=deal, previous_stage=previous_stage)

    def update_fields(self, deal_id, updates: Dict[str, Any]) -> MoveResult:
        """Non-drag edits. Same rollback as move_deal, but success is announced."""
        if 'stage' in updates and updates['stage'] not in self.stages:
            raise ValueError(f"Unknown stage: {updates['stage']}")
        deal = self._find(deal_id)
        previous = {k: deal.get(k) for k in updates}
        previous_stage = deal.get('stage')

        deal.update(updates)
        try:
            stored = self._update_deal(deal_id, updates)
            if stored is None:
                raise LookupError(f'Deal {deal_id} was not updated')
        except Exception as e:
            deal.update(previous)
            logger.error(f'Error updating deal {deal_id}: {e}')
            self._notify('error', 'Failed to update deal')
            return MoveResult(success=False, deal=deal, previous_stage=previous_stage,
                              error='Failed to update deal')

        deal.update(stored)
        if 'stage' not in updates:
            self._notify('success', 'Deal updated successfully')
        return MoveResult(success=True, deal=deal, previous_stage=previous_stage)


class ToastCollector:
    """notify() sink that keeps the last toast for the JSON response."""

    def __init__(self):
        self.toast = None

    def __call__(self, toast_type: str, message: str):
        self.toast = {'type': toast_type, 'message': message}
