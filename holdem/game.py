from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

from .cards import Card, build_deck, cards_to_labels, deal
from .errors import AuthorizationError, PreconditionError, ResourceError, ValidationError
from .evaluator import EVALUATORS, Evaluation, winners
from .models import ActionType, HandResult, HandState, PotAward, SeatState, Stage, TableState
from .seating import next_after, next_eligible, next_occupied, order_from

LOGGER = logging.getLogger(__name__)

# HandEngine applies poker rules to one TableState. It holds no state of its
# own; the store hands it a working copy and commits the result.

Events = List[Dict[str, object]]

STREET_CARDS = {
    Stage.PRE_FLOP: (Stage.FLOP, 3),
    Stage.FLOP: (Stage.TURN, 1),
    Stage.TURN: (Stage.RIVER, 1),
}


class HandEngine:
    """No-limit hand lifecycle for a single table."""

    def __init__(self, table: TableState, clock: Callable[[], float] = time.time) -> None:
        self.table = table
        self.clock = clock

    # Seat management -------------------------------------------------

    def join_seat(self, seat_number: int, player_id: str, display_name: str, buy_in: int) -> SeatState:
        if not isinstance(player_id, str) or not player_id.strip():
            raise ValidationError("BAD_IDENTITY", "player id required")
        if not _is_int(buy_in) or buy_in <= 0:
            raise ValidationError("BAD_AMOUNT", "buy-in must be a positive integer")
        seat = self._seat(seat_number)
        if seat.occupied:
            raise ResourceError("SEAT_OCCUPIED", f"Seat {seat_number} is occupied")
        if self.table.seat_of(player_id) is not None:
            raise PreconditionError("ALREADY_SEATED", "Player already holds a seat at this table")

        seat.vacate()
        seat.player_id = player_id
        seat.display_name = (display_name or "").strip() or f"Seat {seat_number}"
        seat.stack = buy_in
        seat.last_action_at = self.clock()
        LOGGER.info("Table %s seat %s joined by %s (stack=%s)", self.table.table_id, seat_number, player_id, buy_in)
        return seat

    def leave_seat(self, seat_number: int, player_id: str) -> int:
        seat = self._seat(seat_number)
        if seat.player_id != player_id:
            raise AuthorizationError("NOT_YOUR_SEAT", f"Seat {seat_number} is not yours")
        if self.table.in_hand and seat.in_hand:
            raise PreconditionError("SEAT_IN_HAND", "Cannot leave during a hand you were dealt into")
        cash_out = seat.stack
        seat.vacate()
        seat.last_action_at = self.clock()
        LOGGER.info("Table %s seat %s vacated by %s (cash_out=%s)", self.table.table_id, seat_number, player_id, cash_out)
        return cash_out

    def reveal(self, seat_number: int, player_id: str) -> List[Card]:
        seat = self._seat(seat_number)
        if seat.player_id != player_id:
            raise AuthorizationError("NOT_YOUR_SEAT", f"Seat {seat_number} is not yours")
        seat.revealed = list(seat.hole_cards)
        return seat.revealed

    def _seat(self, seat_number: int) -> SeatState:
        if not _is_int(seat_number):
            raise ValidationError("BAD_SEAT", "seat number must be an integer")
        seat = self.table.seats.get(seat_number)
        if seat is None:
            raise ResourceError("SEAT_NOT_FOUND", f"Seat {seat_number} does not exist")
        return seat

    def ready_seats(self) -> List[int]:
        return [number for number in self.table.occupied_seats() if self.table.seats[number].stack > 0]

    # Hand lifecycle --------------------------------------------------

    def can_start_hand(self) -> bool:
        return not self.table.in_hand and len(self.ready_seats()) >= self.table.config.min_players

    def start_hand(self, seed: Optional[int] = None) -> Events:
        table = self.table
        if table.in_hand:
            raise PreconditionError("HAND_IN_PROGRESS", "Hand already in progress")
        active = self.ready_seats()
        if len(active) < max(table.config.min_players, 2):
            raise PreconditionError("NOT_ENOUGH_PLAYERS", "Not enough players to start a hand")

        for seat in table.seats.values():
            seat.reset_for_hand()

        # Move button
        if table.dealer_seat is None:
            table.dealer_seat = active[0]
        else:
            table.dealer_seat = next_after(active, table.dealer_seat)
        dealer = table.dealer_seat
        order = order_from(active, dealer)

        heads_up = len(active) == 2
        if heads_up:
            sb_seat = dealer
        else:
            sb_seat = next_occupied(order, dealer)
        bb_seat = next_occupied(order, sb_seat)
        if sb_seat is None or bb_seat is None:
            raise RuntimeError(f"No blind seats found around button {dealer}")

        table.hand_id += 1
        table.hand = HandState(deck=build_deck(seed), sb_seat=sb_seat, bb_seat=bb_seat)
        table.community = []
        table.pot = 0
        table.last_result = None
        table.stage = Stage.PRE_FLOP

        self._deal_hole_cards(order[1:] + order[:1])

        events: Events = [
            {"ev": "START_HAND", "hand_id": table.hand_id, "button": dealer, "seats": list(order)},
        ]
        sb_posted = self._commit_chips(table.seats[sb_seat], table.config.sb)
        bb_posted = self._commit_chips(table.seats[bb_seat], table.config.bb)
        table.hand.current_bet = max(table.seats[sb_seat].committed, table.seats[bb_seat].committed)
        # The big blind's post stands in for its preflop action.
        table.hand.acted.add(bb_seat)
        events.append(
            {
                "ev": "POST_BLINDS",
                "sb_seat": sb_seat,
                "bb_seat": bb_seat,
                "sb": sb_posted,
                "bb": bb_posted,
            }
        )
        LOGGER.info(
            "Table %s hand %s started: button=%s sb=%s(%s) bb=%s(%s)",
            table.table_id,
            table.hand_id,
            dealer,
            sb_seat,
            sb_posted,
            bb_seat,
            bb_posted,
        )

        now = self.clock()
        table.acting_since = now
        table.current_seat = next_eligible(self._hand_order(), bb_seat, self._needs_action)
        events.extend(self._progress())
        return events

    def _deal_hole_cards(self, deal_order: List[int]) -> None:
        table = self.table
        assert table.hand is not None
        for seat_number in deal_order:
            table.seats[seat_number].in_hand = True
        for _ in range(table.config.variant.hole_card_count):
            for seat_number in deal_order:
                card = deal(table.hand.deck, 1)[0]
                table.seats[seat_number].hole_cards.append(card)

    def _commit_chips(self, seat: SeatState, amount: int) -> int:
        amount = min(amount, seat.stack)
        seat.stack -= amount
        seat.committed += amount
        seat.total_in_pot += amount
        self.table.pot += amount
        if seat.stack == 0:
            seat.is_all_in = True
        return amount

    def _hand_order(self) -> List[int]:
        return sorted(number for number, seat in self.table.seats.items() if seat.occupied and seat.in_hand)

    def _needs_action(self, seat_number: int) -> bool:
        hand = self.table.hand
        seat = self.table.seats[seat_number]
        if hand is None or not seat.can_act:
            return False
        return seat_number not in hand.acted or seat.committed < hand.current_bet

    def _street_complete(self) -> bool:
        hand = self.table.hand
        assert hand is not None
        actors = [number for number in self._hand_order() if self.table.seats[number].can_act]
        if len(actors) <= 1 and all(self.table.seats[n].committed >= hand.current_bet for n in actors):
            return True
        return not any(self._needs_action(number) for number in actors)

    # Action handling -------------------------------------------------

    def legal_actions(self, seat_number: int) -> Tuple[List[ActionType], Optional[int], Optional[int], Optional[int]]:
        table = self.table
        if not table.in_hand or table.hand is None:
            raise PreconditionError("NO_ACTIVE_HAND", "No active betting round")
        hand = table.hand
        seat = self._seat(seat_number)
        if not seat.can_act:
            raise PreconditionError("SEAT_CANNOT_ACT", f"Seat {seat_number} cannot act")

        legal: List[ActionType] = [ActionType.FOLD]
        to_call = hand.current_bet - seat.committed
        call_amount: Optional[int] = None
        if to_call <= 0:
            legal.append(ActionType.CHECK)
        else:
            legal.append(ActionType.CALL)
            call_amount = min(to_call, seat.stack)

        min_to: Optional[int] = None
        max_to: Optional[int] = None
        max_total = seat.stack + seat.committed
        reopened = seat_number not in hand.acted
        if max_total > hand.current_bet and (reopened or hand.current_bet == 0):
            min_to = min(hand.current_bet + table.config.bb, max_total)
            max_to = max_total
            legal.append(ActionType.BET if hand.current_bet == 0 else ActionType.RAISE)
        return legal, call_amount, min_to, max_to

    def apply_action(self, seat_number: int, action: ActionType, amount: Optional[int] = None) -> Events:
        table = self.table
        if not table.in_hand or table.hand is None:
            raise PreconditionError("NO_ACTIVE_HAND", "No active betting round")
        if seat_number != table.current_seat:
            raise AuthorizationError("NOT_YOUR_TURN", "Not your turn")
        hand = table.hand
        seat = table.seats[seat_number]
        if not seat.can_act:
            raise PreconditionError("SEAT_CANNOT_ACT", f"Seat {seat_number} cannot act")

        events: Events = []
        if action == ActionType.FOLD:
            seat.has_folded = True
            hand.acted.add(seat_number)
            events.append({"ev": "FOLD", "seat": seat_number})
        elif action == ActionType.CHECK:
            if hand.current_bet != seat.committed:
                raise PreconditionError("CANNOT_CHECK", "Cannot check when facing a bet")
            hand.acted.add(seat_number)
            events.append({"ev": "CHECK", "seat": seat_number})
        elif action == ActionType.CALL:
            to_call = hand.current_bet - seat.committed
            if to_call <= 0:
                raise PreconditionError("NOTHING_TO_CALL", "Nothing to call")
            paid = self._commit_chips(seat, to_call)
            hand.acted.add(seat_number)
            events.append({"ev": "CALL", "seat": seat_number, "amount": paid, "all_in": seat.is_all_in})
        elif action in (ActionType.BET, ActionType.RAISE):
            events.append(self._apply_wager(seat, action, amount))
        else:
            raise ValidationError("BAD_ACTION", f"Unsupported action {action}")

        now = self.clock()
        seat.last_action_at = now
        table.acting_since = now
        LOGGER.debug("Table %s hand %s seat %s %s", table.table_id, table.hand_id, seat_number, events[-1])

        events.extend(self._after_action(seat_number))
        return events

    def force_fold(self, seat_number: int) -> Events:
        """Fold the seat to act because its turn clock ran out."""
        events: Events = [{"ev": "TIMEOUT", "seat": seat_number}]
        events.extend(self.apply_action(seat_number, ActionType.FOLD))
        LOGGER.info("Table %s hand %s seat %s timed out", self.table.table_id, self.table.hand_id, seat_number)
        return events

    def _apply_wager(self, seat: SeatState, action: ActionType, amount: Optional[int]) -> Dict[str, object]:
        hand = self.table.hand
        assert hand is not None
        bb = self.table.config.bb

        if action == ActionType.BET and hand.current_bet > 0:
            raise PreconditionError("RAISE_REQUIRED", "A bet is already open; raise instead")
        if action == ActionType.RAISE and hand.current_bet == 0:
            raise PreconditionError("NO_BET_TO_RAISE", "Nothing to raise; bet instead")
        if action == ActionType.RAISE and seat.seat in hand.acted:
            raise PreconditionError("RAISE_NOT_ALLOWED", "Betting was not reopened; call or fold")
        if amount is None or not _is_int(amount):
            raise ValidationError("BAD_AMOUNT", f"{action.value} requires an integer amount")
        if amount <= 0:
            raise ValidationError("BAD_AMOUNT", "Amount must be positive")

        max_total = seat.stack + seat.committed
        if amount > max_total:
            raise ValidationError("BAD_AMOUNT", "Amount exceeds stack")
        if amount <= hand.current_bet:
            raise ValidationError("BAD_AMOUNT", "Raise must exceed current bet")
        min_total = hand.current_bet + bb
        full = amount >= min_total
        if not full and amount != max_total:
            raise ValidationError("BAD_AMOUNT", f"Minimum is {min_total} unless all-in")

        paid = self._commit_chips(seat, amount - seat.committed)
        hand.current_bet = amount
        if full:
            hand.acted = {seat.seat}
        else:
            # Short all-in: seats that already acted may only call or fold.
            hand.acted.add(seat.seat)
        return {
            "ev": "BET" if action == ActionType.BET else "RAISE",
            "seat": seat.seat,
            "amount": paid,
            "to": amount,
            "all_in": seat.is_all_in,
        }

    def _after_action(self, seat_number: int) -> Events:
        contesting = self.table.contesting_seats()
        if len(contesting) == 1:
            return self._award_uncontested(contesting[0])
        if self._street_complete():
            return self._advance_stage()
        self.table.current_seat = next_eligible(self._hand_order(), seat_number, self._needs_action)
        return []

    def _progress(self) -> Events:
        if self._street_complete():
            return self._advance_stage()
        return []

    def _advance_stage(self) -> Events:
        table = self.table
        hand = table.hand
        assert hand is not None
        events: Events = []

        while True:
            for seat in table.seats.values():
                seat.reset_for_round()
            hand.current_bet = 0
            hand.acted.clear()

            if table.stage not in STREET_CARDS:
                table.stage = Stage.SHOWDOWN
                events.extend(self._resolve_showdown())
                return events

            next_stage, count = STREET_CARDS[table.stage]
            cards = deal(hand.deck, count)
            table.community.extend(cards)
            table.stage = next_stage
            events.append({"ev": next_stage.name, "cards": cards_to_labels(cards), "pot": table.pot})

            actors = [n for n in self._hand_order() if table.seats[n].can_act]
            if len(actors) >= 2:
                table.current_seat = next_eligible(self._hand_order(), table.dealer_seat, self._needs_action)
                table.acting_since = self.clock()
                return events
            # Nobody left to bet against: run the board out.

    # Settlement ------------------------------------------------------

    def _award_uncontested(self, winner: int) -> Events:
        table = self.table
        amount = table.pot
        table.seats[winner].stack += amount
        table.last_result = HandResult(
            hand_id=table.hand_id,
            board=list(table.community),
            awards=[PotAward(seat=winner, amount=amount, eligible=[winner])],
            uncontested=True,
        )
        LOGGER.info("Table %s hand %s: seat %s wins %s uncontested", table.table_id, table.hand_id, winner, amount)
        events: Events = [{"ev": "POT_AWARD", "seat": winner, "amount": amount}]
        events.extend(self._finish_hand())
        return events

    def _resolve_showdown(self) -> Events:
        table = self.table
        events: Events = []
        board = list(table.community)
        evaluate = EVALUATORS[table.config.variant]

        scores: Dict[int, Evaluation] = {}
        for seat_number in table.contesting_seats():
            seat = table.seats[seat_number]
            seat.revealed = list(seat.hole_cards)
            try:
                score = evaluate(seat.hole_cards, board)
            except NotImplementedError as exc:
                raise PreconditionError("SHOWDOWN_UNAVAILABLE", str(exc)) from exc
            scores[seat_number] = score
            events.append(
                {
                    "ev": "SHOWDOWN",
                    "seat": seat_number,
                    "hand": cards_to_labels(seat.hole_cards),
                    "best": cards_to_labels(score.cards),
                    "rank": score.describe(),
                }
            )

        result = HandResult(
            hand_id=table.hand_id,
            board=board,
            ranks={seat_number: score.describe() for seat_number, score in scores.items()},
        )
        for pot_value, contenders in self._build_side_pots():
            pot_winners = self._in_payout_order(winners({s: scores[s] for s in contenders}))
            share, remainder = divmod(pot_value, len(pot_winners))
            for idx, seat_number in enumerate(pot_winners):
                payout = share + (1 if idx < remainder else 0)
                table.seats[seat_number].stack += payout
                table.pot -= payout
                result.awards.append(PotAward(seat=seat_number, amount=payout, eligible=list(contenders)))
                events.append({"ev": "POT_AWARD", "seat": seat_number, "amount": payout})
                LOGGER.info(
                    "Table %s hand %s: seat %s wins %s with %s",
                    table.table_id,
                    table.hand_id,
                    seat_number,
                    payout,
                    scores[seat_number].describe(),
                )
        if table.pot != 0:
            raise RuntimeError(f"Pot not fully distributed: {table.pot} left")

        table.last_result = result
        events.extend(self._finish_hand())
        return events

    def _build_side_pots(self) -> List[Tuple[int, List[int]]]:
        table = self.table
        remaining: Dict[int, int] = {
            number: seat.total_in_pot for number, seat in table.seats.items() if seat.total_in_pot > 0
        }
        if sum(remaining.values()) != table.pot:
            raise RuntimeError("Pot does not match recorded contributions")

        pots: List[Tuple[int, List[int]]] = []
        while True:
            active = [number for number, amount in remaining.items() if amount > 0]
            if not active:
                break
            layer = min(remaining[number] for number in active)
            pot_total = 0
            for number in active:
                pot_total += layer
                remaining[number] -= layer
            contenders = sorted(number for number in active if table.seats[number].contesting)
            if contenders:
                pots.append((pot_total, contenders))
            elif pots:
                # Dead money above every live stake rides with the last live pot.
                value, previous = pots[-1]
                pots[-1] = (value + pot_total, previous)
            else:
                pots.append((pot_total, table.contesting_seats()))
        return pots

    def _in_payout_order(self, seat_numbers: List[int]) -> List[int]:
        """Order seats clockwise starting left of the button; odd chips go first."""
        dealer = self.table.dealer_seat or 0
        size = len(self.table.seats)
        return sorted(seat_numbers, key=lambda number: (number - dealer - 1) % size)

    def _finish_hand(self) -> Events:
        table = self.table
        table.stage = Stage.IDLE
        table.pot = 0
        table.community = []
        table.current_seat = None
        table.acting_since = None
        table.hand = None
        for seat in table.seats.values():
            seat.committed = 0
            seat.total_in_pot = 0
            seat.in_hand = False
            seat.has_folded = False
            seat.is_all_in = False
        stacks = [
            {"seat": number, "stack": seat.stack} for number, seat in sorted(table.seats.items()) if seat.occupied
        ]
        LOGGER.info("Table %s hand %s finished; stacks=%s", table.table_id, table.hand_id, stacks)
        return [{"ev": "END_HAND", "hand_id": table.hand_id, "stacks": stacks}]

    # Views -----------------------------------------------------------

    def public_view(self) -> Dict[str, object]:
        table = self.table
        result = table.last_result
        return {
            "table_id": table.table_id,
            "stage": table.stage.value,
            "variant": table.config.variant.value,
            "sb": table.config.sb,
            "bb": table.config.bb,
            "hand_id": table.hand_id,
            "dealer_seat": table.dealer_seat,
            "current_seat": table.current_seat,
            "current_bet": table.hand.current_bet if table.hand else 0,
            "pot": table.pot,
            "community": cards_to_labels(table.community),
            "acting_since": table.acting_since,
            "seats": [
                {
                    "seat": number,
                    "player_id": seat.player_id,
                    "name": seat.display_name,
                    "stack": seat.stack,
                    "committed": seat.committed,
                    "has_folded": seat.has_folded,
                    "is_all_in": seat.is_all_in,
                    "in_hand": seat.in_hand,
                    "revealed": cards_to_labels(seat.revealed),
                }
                for number, seat in sorted(table.seats.items())
            ],
            "last_result": _result_payload(result) if result else None,
        }

    def private_view(self, seat_number: int) -> Dict[str, object]:
        seat = self._seat(seat_number)
        payload = self.public_view()
        payload["you"] = {"seat": seat_number, "hole": cards_to_labels(seat.hole_cards)}
        if self.table.in_hand and self.table.current_seat == seat_number:
            legal, call_amount, min_to, max_to = self.legal_actions(seat_number)
            payload["you"].update(
                {
                    "legal": [action.value for action in legal],
                    "call_amount": call_amount,
                    "min_raise_to": min_to,
                    "max_raise_to": max_to,
                }
            )
        return payload


def _result_payload(result: HandResult) -> Dict[str, object]:
    return {
        "hand_id": result.hand_id,
        "board": cards_to_labels(result.board),
        "uncontested": result.uncontested,
        "awards": [{"seat": award.seat, "amount": award.amount} for award in result.awards],
        "ranks": {str(seat): rank for seat, rank in result.ranks.items()},
    }


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
