"""Resource table metadata, PostgreSQL statement building and a transactional resource store."""