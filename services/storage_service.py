# services/storage_service.py

import os
from datetime import datetime
from werkzeug.utils import secure_filename

import config


class StorageService:
    def __init__(self, base_folder=None):
        self.base_folder = base_folder

    @property
    def root(self):
        return self.base_folder or config.UPLOAD_FOLDER

    def save_customer_documents(self, customer_id, files):
        """Save KYC uploads under the customer's folder.

        ``files`` maps document type to a werkzeug FileStorage. Returns a list
        of dicts describing each stored file.
        """
        saved = []
        base_path = os.path.join(self.root, customer_id)

        for doc_type, file in files.items():
            if file and file.filename:
                os.makedirs(base_path, exist_ok=True)

                file_extension = os.path.splitext(secure_filename(file.filename))[1]
                filename = f"{doc_type}_{datetime.now().strftime('%Y%m%d_%H%M%S')}{file_extension}"
                file_path = os.path.join(base_path, filename)

                file.stream.seek(0)
                file.save(file_path)
                file.stream.seek(0)

                saved.append({
                    'type': doc_type,
                    'name': file.filename,
                    'url': file_path,
                    'size': os.path.getsize(file_path),
                    'contentType': file.mimetype,
                })

        return saved
