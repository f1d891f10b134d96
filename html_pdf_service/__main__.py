from html_pdf_service.main import main

main()
