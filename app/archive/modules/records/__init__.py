"""
Records module: document access control and secure transfer.

- Uploads go straight to object storage; the API only signs intent (init)
  and registers metadata once the object exists (complete).
- Printed lookup codes carry identity + a salted checksum, never personal data.
- Reads are gated per document by owner override, role policy and
  manager assignment rows; every attempt lands in the audit trail.
"""
