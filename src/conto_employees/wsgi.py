from conto_employees.app import create_app

app = create_app()
