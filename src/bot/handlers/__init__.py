from .receipt import handle_document, handle_photo, process_receipt
