from telegram import Update
from telegram.ext import ContextTypes

START_TEXT = (
    "🏦 PIX Totalizer\n\n"
    "Encaminhe comprovantes PIX (imagens ou PDFs) para registrar.\n\n"
    "Comandos:\n"
    "/total - Ver total do dia\n"
    "/hoje - Listar transações\n"
    "/apagar - Apagar uma transação\n"
    "/editar 150.00 - Editar valor da última\n"
    "/limpar - Zerar tudo de hoje\n"
    "/plano - Ver seu plano e uso\n"
    "/assinar - Ver planos e assinar"
)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Envia uma mensagem quando o comando /start é emitido."""
    await update.message.reply_text(START_TEXT)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Envia uma mensagem quando o comando /help é emitido."""
    await update.message.reply_text(
        "Como usar:\n"
        "Encaminhe o comprovante PIX como foto ou arquivo (imagem ou PDF). "
        "O valor é lido automaticamente e somado ao total do dia.\n\n"
        "- /total: resumo do dia.\n"
        "- /hoje: lista numerada das transações de hoje.\n"
        "- /apagar: escolhe qual transação apagar.\n"
        "- /apagar 2: apaga a transação nº 2 da lista do /hoje.\n"
        "- /editar 1500,50: corrige o valor da última transação.\n"
        "- /limpar: apaga todas as transações de hoje.\n"
        "- /plano: mostra seu plano e o uso.\n"
        "- /assinar basico|pro|ultra: gera o PIX para assinar um plano.\n\n"
        "O mesmo comprovante nunca é contado duas vezes."
    )
