# src/tests/test_commands.py
import asyncio
import unittest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

from src.bot.commands import ledger, plans
from src.bot.handlers import receipt
from src.config import DELETE_PROMPT_TTL
from src.core import db
from src.core.models import ExtractionResult, PlanType
from src.core.pipeline import ReceiptOutcome, ReceiptStatus
from src.tests.fake_supabase import FakeSupabase

CHAT_ID = 2024


class BotTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.supabase_client = FakeSupabase()
        self.gateway = MagicMock()

        self.update = MagicMock()
        self.update.effective_chat.id = CHAT_ID
        self.update.message.reply_text = AsyncMock(return_value=MagicMock(message_id=99))

        self.context = MagicMock()
        self.context.bot_data = {"supabase_client": self.supabase_client, "payment_gateway": self.gateway}
        self.context.chat_data = {}
        self.context.args = []
        self.context.bot = AsyncMock()
        self.context.job_queue.get_jobs_by_name.return_value = []

    def add_transaction(self, amount, file_id):
        return db.save_transaction(self.supabase_client, CHAT_ID, Decimal(amount), None, "Cliente", file_id, "{}")

    def last_reply(self):
        return self.update.message.reply_text.call_args.args[0]


class TestLedgerCommands(BotTestCase):
    async def test_total_command(self):
        self.add_transaction("100", "a")
        self.add_transaction("50.25", "b")
        await ledger.total_command(self.update, self.context)
        self.assertIn("Total: R$ 150,25", self.last_reply())
        self.assertIn("2 transações", self.last_reply())

    async def test_today_command_empty(self):
        await ledger.today_command(self.update, self.context)
        self.assertEqual(self.last_reply(), "Nenhuma transação registrada hoje.")

    async def test_delete_by_position(self):
        self.add_transaction("10", "a")
        self.add_transaction("20", "b")
        self.context.args = ["1"]
        await ledger.delete_command(self.update, self.context)
        self.assertIn("Transação apagada: R$ 10,00", self.last_reply())
        self.assertFalse(db.is_duplicate(self.supabase_client, CHAT_ID, "a"))
        self.assertTrue(db.is_duplicate(self.supabase_client, CHAT_ID, "b"))

    async def test_delete_position_out_of_range(self):
        self.add_transaction("10", "a")
        self.context.args = ["5"]
        await ledger.delete_command(self.update, self.context)
        self.assertIn("Nenhuma transação na posição 5", self.last_reply())
        self.assertEqual(len(self.supabase_client.tables["transactions"]), 1)

    async def test_delete_invalid_argument(self):
        self.context.args = ["abc"]
        await ledger.delete_command(self.update, self.context)
        self.assertIn("Posição inválida", self.last_reply())

    async def test_delete_without_argument_opens_selection(self):
        self.add_transaction("10", "a")
        self.add_transaction("20", "b")
        await ledger.delete_command(self.update, self.context)

        kwargs = self.update.message.reply_text.call_args.kwargs
        buttons = [button for row in kwargs["reply_markup"].inline_keyboard for button in row]
        self.assertEqual(
            [button.callback_data for button in buttons],
            ["apagar:1", "apagar:2", "apagar:ultima", "apagar:cancelar"],
        )
        self.assertEqual(self.context.chat_data[ledger.PENDING_DELETE_KEY], {"message_id": 99})
        self.context.job_queue.run_once.assert_called_once_with(
            ledger.expire_delete_prompt,
            when=DELETE_PROMPT_TTL,
            chat_id=CHAT_ID,
            data=99,
            name=ledger.delete_prompt_job_name(CHAT_ID),
        )

    async def test_delete_without_transactions(self):
        await ledger.delete_command(self.update, self.context)
        self.assertEqual(self.last_reply(), "Nenhuma transação para apagar hoje.")
        self.context.job_queue.run_once.assert_not_called()

    async def test_edit_command(self):
        self.add_transaction("10", "a")
        self.context.args = ["1.500,50"]
        await ledger.edit_command(self.update, self.context)
        self.assertIn("editada para: R$ 1.500,50", self.last_reply())
        self.assertEqual(db.get_today_stats(self.supabase_client, CHAT_ID)["total"], Decimal("1500.50"))

    async def test_edit_command_invalid_amount(self):
        self.add_transaction("10", "a")
        self.context.args = ["-5"]
        await ledger.edit_command(self.update, self.context)
        self.assertEqual(self.last_reply(), "❌ Valor inválido. Use: /editar 150.00")
        self.assertEqual(db.get_today_stats(self.supabase_client, CHAT_ID)["total"], Decimal("10"))

    async def test_clear_command(self):
        self.add_transaction("10", "a")
        await ledger.clear_command(self.update, self.context)
        self.assertIn("1 transação(ões) apagada(s)", self.last_reply())
        await ledger.clear_command(self.update, self.context)
        self.assertEqual(self.last_reply(), "Nenhuma transação para limpar hoje.")


class TestDeleteSelectionCallback(BotTestCase):
    def setUp(self):
        super().setUp()
        self.query = MagicMock()
        self.query.answer = AsyncMock()
        self.query.edit_message_text = AsyncMock()
        self.query.message.message_id = 99
        self.update.callback_query = self.query

    async def test_expired_selection(self):
        self.add_transaction("10", "a")
        self.query.data = "apagar:1"
        await ledger.delete_selection_callback(self.update, self.context)

        self.query.answer.assert_awaited_once_with("Seleção expirada. Use /apagar novamente.")
        self.context.bot.delete_message.assert_awaited_once_with(chat_id=CHAT_ID, message_id=99)
        self.assertEqual(len(self.supabase_client.tables["transactions"]), 1)

    async def test_selection_deletes_position(self):
        self.add_transaction("10", "a")
        self.add_transaction("20", "b")
        self.context.chat_data[ledger.PENDING_DELETE_KEY] = {"message_id": 99}
        self.query.data = "apagar:2"

        await ledger.delete_selection_callback(self.update, self.context)

        self.assertNotIn(ledger.PENDING_DELETE_KEY, self.context.chat_data)
        self.assertIn("Transação apagada: R$ 20,00", self.query.edit_message_text.call_args.args[0])
        self.assertTrue(db.is_duplicate(self.supabase_client, CHAT_ID, "a"))
        self.assertFalse(db.is_duplicate(self.supabase_client, CHAT_ID, "b"))

    async def test_selection_cancel(self):
        self.add_transaction("10", "a")
        self.context.chat_data[ledger.PENDING_DELETE_KEY] = {"message_id": 99}
        self.query.data = "apagar:cancelar"

        await ledger.delete_selection_callback(self.update, self.context)

        self.query.edit_message_text.assert_awaited_once_with("Operação cancelada.")
        self.assertEqual(len(self.supabase_client.tables["transactions"]), 1)

    async def test_expire_job_clears_pending(self):
        self.context.chat_data[ledger.PENDING_DELETE_KEY] = {"message_id": 99}
        self.context.job = MagicMock(chat_id=CHAT_ID, data=99)
        await ledger.expire_delete_prompt(self.context)
        self.assertNotIn(ledger.PENDING_DELETE_KEY, self.context.chat_data)
        self.context.bot.delete_message.assert_awaited_once_with(chat_id=CHAT_ID, message_id=99)


class TestPlanCommands(BotTestCase):
    async def test_plan_command(self):
        await plans.plan_command(self.update, self.context)
        self.assertIn("Plano: Grátis", self.last_reply())

    async def test_subscribe_invalid_plan(self):
        self.context.args = ["free"]
        await plans.subscribe_command(self.update, self.context)
        self.assertIn("Plano inválido", self.last_reply())
        self.gateway.create_pix_payment.assert_not_called()

    async def test_subscribe_without_argument_shows_keyboard(self):
        await plans.subscribe_command(self.update, self.context)
        markup = self.update.message.reply_text.call_args.kwargs["reply_markup"]
        self.assertEqual(
            [row[0].callback_data for row in markup.inline_keyboard],
            ["assinar:basico", "assinar:pro", "assinar:ultra"],
        )

    async def test_subscribe_sends_pix(self):
        self.gateway.create_pix_payment.return_value = {
            "id": 1,
            "status": "pending",
            "point_of_interaction": {"transaction_data": {"qr_code": "000201PIX", "qr_code_base64": "aW1n"}},
        }
        self.context.args = ["Pro"]
        await plans.subscribe_command(self.update, self.context)

        self.context.bot.send_photo.assert_awaited_once()
        last_message = self.context.bot.send_message.call_args.args[1]
        self.assertIn("000201PIX", last_message)
        self.assertIn("R$ 349,00", last_message)
        self.assertEqual(db.get_payment_by_mp_id(self.supabase_client, "1").plan, PlanType.PRO)


class TestProcessReceipt(BotTestCase):
    def setUp(self):
        super().setUp()
        telegram_file = MagicMock(file_path="photos/file_1.jpg")
        telegram_file.download_as_bytearray = AsyncMock(return_value=bytearray(b"img"))
        self.context.bot.get_file = AsyncMock(return_value=telegram_file)

    async def test_duplicate_receipt(self):
        self.add_transaction("10", "file-1")
        await receipt.process_receipt(self.update, self.context, "file-1", media_type=None)
        self.assertEqual(self.last_reply(), "⚠️ Este comprovante já foi registrado.")
        self.context.bot.get_file.assert_not_awaited()

    async def test_limit_reached(self):
        for i in range(5):
            self.add_transaction("10", f"file-{i}")
        await receipt.process_receipt(self.update, self.context, "file-new", media_type=None)
        self.assertIn("Limite diário atingido (5/5)", self.last_reply())
        self.assertIn("/assinar", self.last_reply())

    @patch("src.bot.handlers.receipt.ingest_receipt")
    async def test_recorded_receipt(self, mock_ingest):
        mock_ingest.return_value = ReceiptOutcome(status=ReceiptStatus.RECORDED, message="✓ R$ 10,00")
        await receipt.process_receipt(self.update, self.context, "file-1", media_type=None)

        mock_ingest.assert_called_once_with(self.supabase_client, CHAT_ID, "file-1", b"img", "image/jpeg")
        replies = [c.args[0] for c in self.update.message.reply_text.call_args_list]
        self.assertEqual(replies, ["🔍 Processando comprovante...", "✓ R$ 10,00"])

    @patch("src.bot.handlers.receipt.ingest_receipt")
    async def test_extraction_failed(self, mock_ingest):
        mock_ingest.return_value = ReceiptOutcome(
            status=ReceiptStatus.EXTRACTION_FAILED,
            extraction=ExtractionResult(None, None, None, "{}", error="Imagem ilegível"),
        )
        await receipt.process_receipt(self.update, self.context, "file-1", media_type="application/pdf")
        self.assertEqual(self.last_reply(), "❌ Não consegui identificar o valor.\nImagem ilegível")
        mock_ingest.assert_called_once_with(self.supabase_client, CHAT_ID, "file-1", b"img", "application/pdf")

    @patch("src.bot.handlers.receipt.ingest_receipt")
    async def test_processing_error(self, mock_ingest):
        mock_ingest.side_effect = RuntimeError("Gemini fora do ar")
        await receipt.process_receipt(self.update, self.context, "file-1", media_type=None)
        self.assertEqual(self.last_reply(), receipt.GENERIC_ERROR_MESSAGE)

    @patch("src.bot.handlers.receipt.admit_receipt")
    async def test_admission_runs_outside_event_loop(self, mock_admit):
        loops_seen = []

        def record_loop(*args):
            try:
                loops_seen.append(asyncio.get_running_loop())
            except RuntimeError:
                loops_seen.append(None)
            return ReceiptOutcome(status=ReceiptStatus.DUPLICATE)

        mock_admit.side_effect = record_loop
        await receipt.process_receipt(self.update, self.context, "file-1", media_type=None)
        mock_admit.assert_called_once_with(self.supabase_client, CHAT_ID, "file-1")
        self.assertEqual(loops_seen, [None])

    async def test_unsupported_document(self):
        self.update.message.document.mime_type = "application/zip"
        await receipt.handle_document(self.update, self.context)
        self.assertIn("Envie apenas imagens ou PDFs", self.last_reply())


if __name__ == "__main__":
    unittest.main()
