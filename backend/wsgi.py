from booking_ledger import create_app

app = create_app()
